from fastapi import APIRouter

from goalpush.api import push

api_router = APIRouter(prefix="/v1")

api_router.include_router(push.router)
