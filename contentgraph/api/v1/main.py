from fastapi import APIRouter

from contentgraph.api.v1.endpoints import cms


api_router = APIRouter()

api_router.include_router(cms.router, prefix="/cms")
