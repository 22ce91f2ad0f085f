from fastapi import APIRouter

router = APIRouter()


@router.get("/protected")
async def protected():
    return {"status": "ok", "message": "API key accepted."}
