from fastapi import APIRouter

from contentgraph.api.v1.endpoints.cms import content_types, fields, entries, relations

router = APIRouter()

router.include_router(content_types.router, prefix="/content-types", tags=["cms-content-types"])
router.include_router(fields.router, prefix="/content-types", tags=["cms-fields"])
router.include_router(entries.router, prefix="/entries", tags=["cms-entries"])
router.include_router(relations.router, prefix="/relations", tags=["cms-relations"])
