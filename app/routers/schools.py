"""
School directory endpoints.

Reads are public; creating a school or deleting a hosted image needs a
session (enforced by the request gate and the CurrentUser dependency).
"""

import logging

from fastapi import APIRouter, File, Form, Request, UploadFile
from pydantic import BaseModel, ConfigDict, Field

from app import db
from app.dependencies import CurrentUser, Images
from app.errors import DependencyFailure, NotFound, ValidationError
from app.models import MessageResponse, SchoolCreatedResponse, SchoolListResponse, SchoolResponse
from app.rate_limit import DEFAULT, limiter
from app.services.images import public_id_from_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["schools"])


class ImageDeleteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str = ""
    public_id: str = Field("", alias="publicId")


@router.get(
    "/schools",
    response_model=SchoolListResponse,
    operation_id="listSchools",
    summary="List all schools, newest first",
)
async def list_schools() -> SchoolListResponse:
    return SchoolListResponse(data=await db.list_schools())


@router.get(
    "/schools/{school_id}",
    response_model=SchoolResponse,
    operation_id="getSchool",
    summary="Get a single school",
)
async def get_school(school_id: int) -> SchoolResponse:
    school = await db.get_school(school_id)
    if school is None:
        raise NotFound("School not found")
    return SchoolResponse(data=school)


@router.post(
    "/schools",
    response_model=SchoolCreatedResponse,
    operation_id="createSchool",
    summary="Register a new school",
)
@limiter.limit(DEFAULT)
async def create_school(
    request: Request,
    current_user: CurrentUser,
    images: Images,
    name: str = Form(""),
    address: str = Form(""),
    city: str = Form(""),
    state: str = Form(""),
    contact: str = Form(""),
    email_id: str = Form(""),
    image: UploadFile | None = File(None),
) -> SchoolCreatedResponse:
    fields = {
        "name": name.strip(),
        "address": address.strip(),
        "city": city.strip(),
        "state": state.strip(),
        "contact": contact.strip(),
        "email_id": email_id.strip(),
    }
    if not all(fields.values()):
        raise ValidationError("All fields are required")

    image_url = None
    if image is not None and image.filename:
        # One byte past the limit is enough to reject an oversized file.
        data = await image.read(images.max_bytes + 1)
        if data:
            try:
                image_url = (await images.upload(data, image.filename, image.content_type)).url
            except DependencyFailure:
                # Storage failed; the school is saved without a picture.
                logger.warning("Continuing without image for %s", fields["name"])

    school = await db.create_school(**fields, image=image_url)
    logger.info("School %s created by %s", school.id, current_user.email)
    return SchoolCreatedResponse(
        message="School added successfully",
        data={"id": school.id},
    )


@router.post(
    "/images/delete",
    response_model=MessageResponse,
    operation_id="deleteImage",
    summary="Delete a hosted school image by URL or public id",
)
async def delete_image(
    body: ImageDeleteRequest,
    current_user: CurrentUser,
    images: Images,
) -> MessageResponse:
    if not body.public_id.strip() and not body.url.strip():
        raise ValidationError("Missing image url or publicId")
    public_id = body.public_id.strip() or public_id_from_url(body.url.strip())
    if not public_id or not await images.destroy(public_id):
        raise NotFound("Image is not hosted remotely")
    logger.info("Image %s deleted by %s", public_id, current_user.email)
    return MessageResponse(message="Image deleted")


@router.post(
    "/cloudinary/delete",
    response_model=MessageResponse,
    operation_id="deleteCloudinaryImage",
    summary="Delete a hosted school image (legacy alias of /images/delete)",
    include_in_schema=False,
)
async def delete_cloudinary_image(
    body: ImageDeleteRequest,
    current_user: CurrentUser,
    images: Images,
) -> MessageResponse:
    return await delete_image(body, current_user, images)
