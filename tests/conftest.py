from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from contentgraph.core.database import Base, enable_sqlite_foreign_keys
from contentgraph import models  # noqa: F401
from contentgraph.models.workspace import Workspace
from contentgraph.schemas.cms import (
    ContentEntryCreate,
    ContentFieldCreate,
    ContentTypeCreate,
    FieldType,
    RelationKind,
)
from contentgraph.services.cms import content_entry_service, content_field_service, content_type_service


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def workspace(db):
    ws = Workspace(name="Acme", slug="acme")
    db.add(ws)
    db.commit()
    db.refresh(ws)
    return ws


@pytest.fixture
def other_workspace(db):
    ws = Workspace(name="Globex", slug="globex")
    db.add(ws)
    db.commit()
    db.refresh(ws)
    return ws


@pytest.fixture
def make_type(db, workspace):
    def _make(api_key, seo_enabled=True, ws=None):
        return content_type_service.create_content_type(
            db,
            ContentTypeCreate(name=api_key.title(), api_key=api_key, seo_enabled=seo_enabled),
            (ws or workspace).id,
        )
    return _make


@pytest.fixture
def make_field(db, workspace):
    def _make(content_type, api_key, field_type, ws=None, **kwargs):
        return content_field_service.create_field(
            db,
            content_type.id,
            ContentFieldCreate(name=api_key, api_key=api_key, type=field_type, **kwargs),
            (ws or workspace).id,
        )
    return _make


@pytest.fixture
def make_entry(db, workspace):
    def _make(content_type, values=None, ws=None, denorm_engine=None, **attrs):
        attrs.setdefault("is_published", True)
        payload = ContentEntryCreate(
            values=[{"api_key": k, "value": v} for k, v in (values or {}).items()],
            **attrs
        )
        return content_entry_service.create_entry(
            db, (ws or workspace).id, content_type.id, payload, denorm_engine=denorm_engine
        )
    return _make


@pytest.fixture
def blog(make_type, make_field):
    """
    company(name)
    author(name, company -> company MANY_TO_ONE)
    article(title*, author -> author MANY_TO_ONE, authors -> author ONE_TO_MANY,
            reviewers -> author MANY_TO_MANY, authorName, reviewerNames)
    """
    company = make_type("company")
    author = make_type("author")
    article = make_type("article")

    company_name = make_field(company, "name", FieldType.TEXT)
    author_name = make_field(author, "name", FieldType.TEXT)
    author_company = make_field(
        author, "company", FieldType.RELATION,
        relation={"kind": RelationKind.MANY_TO_ONE, "target_content_type_id": company.id},
    )

    title = make_field(article, "title", FieldType.TEXT, is_required=True)
    author_name_mirror = make_field(article, "authorName", FieldType.TEXT)
    reviewer_names_mirror = make_field(article, "reviewerNames", FieldType.TEXT)
    article_author = make_field(
        article, "author", FieldType.RELATION,
        relation={"kind": RelationKind.MANY_TO_ONE, "target_content_type_id": author.id},
        config={"denorm": {"targetFieldApiKey": "authorName"}},
    )
    article_authors = make_field(
        article, "authors", FieldType.RELATION,
        relation={"kind": RelationKind.ONE_TO_MANY, "target_content_type_id": author.id},
    )
    article_reviewers = make_field(
        article, "reviewers", FieldType.RELATION,
        relation={"kind": RelationKind.MANY_TO_MANY, "target_content_type_id": author.id},
        config={"denorm": {"targetFieldApiKey": "reviewerNames", "joinWith": ", "}},
    )

    return SimpleNamespace(
        company=company,
        author=author,
        article=article,
        company_name=company_name,
        author_name=author_name,
        author_company=author_company,
        title=title,
        author_name_mirror=author_name_mirror,
        reviewer_names_mirror=reviewer_names_mirror,
        article_author=article_author,
        article_authors=article_authors,
        article_reviewers=article_reviewers,
    )
