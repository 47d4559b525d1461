from fastapi import Header, HTTPException, Depends, status
from sqlalchemy.orm import Session

from contentgraph.core.config import settings
from contentgraph.core.database import SessionLocal
from contentgraph.models.workspace import Workspace
from contentgraph.services.cms.denorm_service import DenormEngine


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_workspace_id(
    x_workspace_id: str = Header(...), db: Session = Depends(get_db)
) -> str:
    if not x_workspace_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Workspace-Id header is missing",
        )
    workspace = db.query(Workspace).filter(Workspace.id == x_workspace_id).first()
    if not workspace:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Workspace not found",
        )
    return workspace.id


def get_denorm_engine(db: Session = Depends(get_db)) -> DenormEngine:
    return DenormEngine(db, enabled=settings.ENABLE_DENORM)
