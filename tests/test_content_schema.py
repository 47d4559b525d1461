import pytest
from pydantic import ValidationError

from contentgraph.core.exceptions import NotFoundError, SchemaDefinitionError
from contentgraph.models.content_entry import ContentEntry
from contentgraph.models.content_field import RelationConfig
from contentgraph.models.field_value import FieldValue
from contentgraph.schemas.cms import (
    ContentFieldCreate,
    ContentFieldUpdate,
    ContentTypeCreate,
    ContentTypeUpdate,
    FieldPosition,
    FieldType,
    RelationKind,
)
from contentgraph.services.cms import content_field_service, content_type_service
from contentgraph.services.cms.content_field_service import validate_field_definition


class TestContentTypes:

    def test_api_key_is_unique_per_workspace(self, db, workspace, other_workspace, make_type):
        make_type("article")
        with pytest.raises(SchemaDefinitionError) as exc:
            make_type("article")
        assert exc.value.code == "CONTENT_TYPE_API_KEY_DUPLICATE"
        assert make_type("article", ws=other_workspace).workspace_id == other_workspace.id

    def test_api_key_format(self):
        with pytest.raises(ValidationError):
            ContentTypeCreate(name="Bad", api_key="1-bad")

    def test_lookup_is_workspace_scoped(self, db, workspace, other_workspace, make_type):
        article = make_type("article")
        assert content_type_service.get_content_type_by_api_key(db, "article", workspace.id).id == article.id
        assert content_type_service.get_content_type_by_api_key(db, "article", other_workspace.id) is None
        with pytest.raises(NotFoundError):
            content_type_service.get_content_type_or_raise(db, article.id, other_workspace.id)

    def test_disabling_seo_clears_entry_seo(self, db, workspace, blog, make_entry):
        entry = make_entry(blog.article, {"title": "x"}, seo_title="Title", keywords=["a"])

        content_type_service.update_content_type(
            db, blog.article.id, ContentTypeUpdate(seo_enabled=False), workspace.id
        )

        db.refresh(entry)
        assert entry.seo_title is None
        assert entry.keywords == []

    def test_rename_to_existing_api_key(self, db, workspace, make_type):
        make_type("article")
        page = make_type("page")
        with pytest.raises(SchemaDefinitionError):
            content_type_service.update_content_type(db, page.id, ContentTypeUpdate(api_key="article"), workspace.id)

    def test_delete_cascades(self, db, workspace, blog, make_entry):
        person = make_entry(blog.author, seo_title="Ann")
        make_entry(blog.article, {"title": "x", "authors": [person.id]})

        assert content_type_service.delete_content_type(db, blog.article.id, workspace.id) is True

        assert db.query(ContentEntry).filter(ContentEntry.content_type_id == blog.article.id).count() == 0
        assert db.query(ContentEntry).filter(ContentEntry.content_type_id == blog.author.id).count() == 1
        assert content_type_service.delete_content_type(db, blog.article.id, workspace.id) is False


class TestFields:

    def test_fields_are_listed_in_declaration_order(self, db, blog):
        fields = content_field_service.list_fields(db, blog.article.id)
        assert [f.api_key for f in fields] == [
            "title", "authorName", "reviewerNames", "author", "authors", "reviewers"
        ]

    def test_reorder(self, db, workspace, make_type, make_field):
        page = make_type("page")
        a = make_field(page, "a", FieldType.TEXT)
        b = make_field(page, "b", FieldType.TEXT)

        fields = content_field_service.reorder_fields(
            db, page.id, [FieldPosition(id=a.id, position=2), FieldPosition(id=b.id, position=1)], workspace.id
        )
        assert [f.api_key for f in fields] == ["b", "a"]

    def test_reorder_rejects_colliding_positions(self, db, workspace, make_type, make_field):
        page = make_type("page")
        a = make_field(page, "a", FieldType.TEXT)
        b = make_field(page, "b", FieldType.TEXT)

        with pytest.raises(SchemaDefinitionError):
            content_field_service.reorder_fields(
                db, page.id, [FieldPosition(id=a.id, position=b.position)], workspace.id
            )
        with pytest.raises(SchemaDefinitionError):
            content_field_service.reorder_fields(
                db, page.id, [FieldPosition(id=a.id, position=5), FieldPosition(id=b.id, position=5)], workspace.id
            )
        assert [f.api_key for f in content_field_service.list_fields(db, page.id)] == ["a", "b"]

    def test_reorder_rejects_foreign_fields(self, db, workspace, blog):
        with pytest.raises(SchemaDefinitionError):
            content_field_service.reorder_fields(
                db, blog.author.id, [FieldPosition(id=blog.title.id, position=1)], workspace.id
            )

    def test_api_key_is_unique_per_content_type(self, blog, make_field):
        with pytest.raises(SchemaDefinitionError) as exc:
            make_field(blog.article, "title", FieldType.TEXT)
        assert exc.value.code == "CONTENT_FIELD_API_KEY_DUPLICATE"

    def test_relation_requires_config_and_known_target(self, workspace, blog, make_field):
        with pytest.raises(SchemaDefinitionError):
            make_field(blog.article, "editor", FieldType.RELATION)
        with pytest.raises(SchemaDefinitionError):
            make_field(
                blog.article, "editor", FieldType.RELATION,
                relation={"kind": RelationKind.ONE_TO_ONE, "target_content_type_id": "missing"},
            )

    def test_relation_target_in_other_workspace(self, other_workspace, blog, make_type, make_field):
        foreign = make_type("author", ws=other_workspace)
        with pytest.raises(SchemaDefinitionError):
            make_field(
                blog.article, "editor", FieldType.RELATION,
                relation={"kind": RelationKind.ONE_TO_ONE, "target_content_type_id": foreign.id},
            )

    def test_slug_from_must_be_text_like(self, blog, make_field):
        with pytest.raises(SchemaDefinitionError):
            make_field(blog.article, "path", FieldType.SLUG, slug_from="missing")
        with pytest.raises(SchemaDefinitionError):
            make_field(blog.article, "path", FieldType.SLUG, slug_from="author")
        assert make_field(blog.article, "path", FieldType.SLUG, slug_from="title").slug_from == "title"

    def test_changing_type_drops_relation_config(self, db, workspace, blog):
        field = content_field_service.update_field(
            db, blog.article.id, blog.article_author.id, ContentFieldUpdate(type=FieldType.TEXT), workspace.id
        )
        assert field.type == "TEXT"
        assert field.relation is None
        assert db.query(RelationConfig).filter(RelationConfig.field_id == field.id).count() == 0

    def test_update_relation_kind(self, db, workspace, blog):
        field = content_field_service.update_field(
            db, blog.article.id, blog.article_author.id,
            ContentFieldUpdate(relation={"kind": RelationKind.MANY_TO_MANY, "target_content_type_id": blog.author.id}),
            workspace.id,
        )
        assert field.relation.kind == "MANY_TO_MANY"

    def test_delete_field_removes_values(self, db, workspace, blog, make_entry):
        make_entry(blog.article, {"title": "x", "authorName": "y"})

        content_field_service.delete_field(db, blog.article.id, blog.author_name_mirror.id, workspace.id)

        assert db.query(FieldValue).filter(FieldValue.field_id == blog.author_name_mirror.id).count() == 0

    def test_field_of_other_content_type_is_not_found(self, db, workspace, blog):
        with pytest.raises(NotFoundError):
            content_field_service.get_field_or_raise(db, blog.author.id, blog.title.id, workspace.id)


@pytest.mark.parametrize("definition, message", [
    ({"min_length": 5, "max_length": 2}, "maxLength cannot be less than minLength"),
    ({"min_length": -1}, "minLength must be >= 0"),
    ({"min_number": 5, "max_number": 1}, "maxNumber cannot be less than minNumber"),
    ({"type": "RELATION", "config": {"minCount": 3, "maxCount": 1}}, "maxCount cannot be less than minCount"),
    ({"type": "RELATION", "config": {"denorm": {"from": "seoTitle"}}}, "denorm config requires targetFieldApiKey"),
    ({"type": "MEDIA", "config": {"minFiles": 2}}, "maxFiles cannot be less than minFiles"),
])
def test_validate_field_definition(definition, message):
    assert validate_field_definition(definition) == [message]


def test_create_field_rejects_invalid_bounds(blog, make_field):
    with pytest.raises(SchemaDefinitionError):
        make_field(blog.article, "summary", FieldType.TEXT, min_length=10, max_length=5)


def test_field_create_schema_rejects_bad_api_key():
    with pytest.raises(ValidationError):
        ContentFieldCreate(name="x", api_key="has space", type=FieldType.TEXT)
