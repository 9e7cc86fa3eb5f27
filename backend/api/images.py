from fastapi import APIRouter, Depends, UploadFile, File, HTTPException

from auth.utils import get_current_user
from db.models import User
from utils.image_utils import store_checkin_image, validate_image_payload

router = APIRouter(prefix="/images", tags=["images"])


@router.post("/upload", status_code=201)
async def upload_image(
    file: UploadFile = File(...),
    user: User = Depends(get_current_user),
):
    """Upload one check-in photo and return the reference to submit with the check-in."""
    contents = await file.read()
    try:
        _mime, extension = validate_image_payload(contents, content_type=file.content_type)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    url = store_checkin_image(contents, extension=extension)
    return {"url": url, "size": len(contents)}
