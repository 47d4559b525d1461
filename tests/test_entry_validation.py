import pytest

from contentgraph.core.exceptions import ConfigurationError, EntryValidationError
from contentgraph.schemas.cms import FieldType, RelationKind
from contentgraph.services.cms.entry_validation import (
    enforce_on_payload,
    has_typed_input,
    relation_ids,
    validate_media,
)


def _values(**kwargs):
    return [{"api_key": k, "value": v} for k, v in kwargs.items()]


def _rule(exc_info):
    return exc_info.value.field, exc_info.value.rule


def test_missing_required_field(db, blog):
    with pytest.raises(EntryValidationError) as exc:
        enforce_on_payload(db, blog.article.id, None, _values(authorName="x"))
    assert _rule(exc) == ("title", "required")
    assert str(exc.value) == "title is required"


def test_optional_field_absent_stages_nothing(db, blog):
    staged = enforce_on_payload(db, blog.article.id, None, _values(title="Hello"))
    assert [w.field_id for w in staged.field_values] == [blog.title.id]
    assert staged.relations == []


def test_required_relation_without_targets(db, make_type, make_field):
    author = make_type("author")
    book = make_type("book")
    make_field(
        book, "writer", FieldType.RELATION, is_required=True,
        relation={"kind": RelationKind.MANY_TO_ONE, "target_content_type_id": author.id},
    )
    with pytest.raises(EntryValidationError) as exc:
        enforce_on_payload(db, book.id, None, _values(writer=["", "  "]))
    assert _rule(exc) == ("writer", "required")

    with pytest.raises(EntryValidationError):
        enforce_on_payload(db, book.id, None, [])


def test_unique_field_excludes_self(db, make_type, make_field, make_entry):
    product = make_type("product")
    make_field(product, "sku", FieldType.TEXT, is_unique=True)
    holder = make_entry(product, {"sku": "A1"})

    with pytest.raises(EntryValidationError) as exc:
        enforce_on_payload(db, product.id, None, _values(sku="A1"))
    assert _rule(exc) == ("sku", "unique")
    assert str(exc.value) == "sku must be unique"

    staged = enforce_on_payload(db, product.id, holder.id, _values(sku="A1"))
    assert staged.field_values[0].value.value == "A1"


def test_text_and_number_bounds(db, make_type, make_field):
    product = make_type("product")
    make_field(product, "code", FieldType.TEXT, min_length=2, max_length=4)
    make_field(product, "price", FieldType.NUMBER, min_number=0, max_number=100)

    with pytest.raises(EntryValidationError) as exc:
        enforce_on_payload(db, product.id, None, _values(code="a"))
    assert _rule(exc) == ("code", "min_length")

    with pytest.raises(EntryValidationError) as exc:
        enforce_on_payload(db, product.id, None, _values(code="abcde"))
    assert _rule(exc) == ("code", "max_length")

    with pytest.raises(EntryValidationError) as exc:
        enforce_on_payload(db, product.id, None, _values(price="101"))
    assert _rule(exc) == ("price", "max_number")

    with pytest.raises(EntryValidationError) as exc:
        enforce_on_payload(db, product.id, None, _values(price="cheap"))
    assert _rule(exc) == ("price", "number")
    assert str(exc.value) == "price must be a number"

    staged = enforce_on_payload(db, product.id, None, _values(code="ab", price="9.5"))
    assert [w.value.value for w in staged.field_values] == ["ab", 9.5]


def test_first_violation_follows_field_order(db, make_type, make_field):
    product = make_type("product")
    make_field(product, "code", FieldType.TEXT, is_required=True)
    make_field(product, "price", FieldType.NUMBER)

    with pytest.raises(EntryValidationError) as exc:
        enforce_on_payload(db, product.id, None, _values(price="nope"))
    assert exc.value.field == "code"


def test_slug_generated_from_source(db, make_type, make_field):
    page = make_type("page")
    make_field(page, "headline", FieldType.TEXT)
    make_field(page, "path", FieldType.SLUG, slug_from="headline")

    staged = enforce_on_payload(db, page.id, None, _values(headline="Héllo World"))
    assert staged.generated == {"path": "hello-world"}

    staged = enforce_on_payload(db, page.id, None, _values(headline="x", path="Custom"))
    assert staged.generated == {}
    assert [w.value.value for w in staged.field_values] == ["x", "Custom"]


def test_slug_source_empty(db, make_type, make_field):
    page = make_type("page")
    make_field(page, "headline", FieldType.TEXT)
    make_field(page, "path", FieldType.SLUG, slug_from="headline")

    with pytest.raises(EntryValidationError) as exc:
        enforce_on_payload(db, page.id, None, _values(headline="!!!"))
    assert _rule(exc) == ("path", "slug_source")


def test_slug_not_regenerated_on_update_without_source(db, make_type, make_field, make_entry):
    page = make_type("page")
    make_field(page, "headline", FieldType.TEXT)
    make_field(page, "views", FieldType.NUMBER)
    make_field(page, "path", FieldType.SLUG, slug_from="headline")
    entry = make_entry(page, {"headline": "First"})

    staged = enforce_on_payload(db, page.id, entry.id, _values(views=3))
    assert staged.generated == {}
    assert len(staged.field_values) == 1


def test_relation_cardinality_and_counts(db, blog, make_entry):
    a = make_entry(blog.author, seo_title="A")
    b = make_entry(blog.author, seo_title="B")

    with pytest.raises(EntryValidationError) as exc:
        enforce_on_payload(db, blog.article.id, None, _values(title="t", author=[a.id, b.id]))
    assert _rule(exc) == ("author", "cardinality")

    blog.article_reviewers.config = {"minCount": 2, "maxCount": 2}
    db.commit()

    with pytest.raises(EntryValidationError) as exc:
        enforce_on_payload(db, blog.article.id, None, _values(title="t", reviewers=[a.id]))
    assert _rule(exc) == ("reviewers", "min_count")
    assert str(exc.value) == "reviewers requires at least 2 related item(s)"

    staged = enforce_on_payload(db, blog.article.id, None, _values(title="t", reviewers=[a.id, b.id, a.id]))
    assert staged.relations[0].target_ids == [a.id, b.id]


def test_relation_max_count(db, blog, make_entry):
    ids = [make_entry(blog.author, seo_title=f"A{i}").id for i in range(3)]
    blog.article_reviewers.config = {"maxCount": 2}
    db.commit()

    with pytest.raises(EntryValidationError) as exc:
        enforce_on_payload(db, blog.article.id, None, _values(title="t", reviewers=ids))
    assert _rule(exc) == ("reviewers", "max_count")


def test_relation_target_must_match_content_type(db, blog, workspace, make_entry):
    company = make_entry(blog.company, seo_title="Initech")

    with pytest.raises(EntryValidationError) as exc:
        enforce_on_payload(
            db, blog.article.id, None, _values(title="t", author=[company.id]), workspace_id=workspace.id
        )
    assert _rule(exc) == ("author", "relation_target")
    assert exc.value.details == {"missing": [company.id]}


def test_relation_without_config_is_a_configuration_error(db, blog):
    blog.article_author.relation = None
    db.commit()

    with pytest.raises(ConfigurationError):
        enforce_on_payload(db, blog.article.id, None, _values(title="t", author=["x"]))


def test_update_leaves_absent_fields_and_clears_empty_ones(db, blog, make_entry):
    article = make_entry(blog.article, {"title": "Hello", "authorName": "x"})

    staged = enforce_on_payload(db, blog.article.id, article.id, _values(authorName=""))
    assert staged.field_values == []
    assert staged.cleared_field_ids == [blog.author_name_mirror.id]

    staged = enforce_on_payload(db, blog.article.id, article.id, _values(author=[]))
    assert staged.relations[0].target_ids == []


def test_has_typed_input(blog):
    assert has_typed_input(blog.article_reviewers, [" ", None]) is False
    assert has_typed_input(blog.article_reviewers, "abc") is True
    assert has_typed_input(blog.title, "") is False
    assert has_typed_input(blog.title, 0) is True
    assert relation_ids(["a", "a", " b ", ""]) == ["a", "b"]


class TestMedia:

    @pytest.fixture
    def gallery(self, make_type, make_field):
        gallery = make_type("gallery")
        field = make_field(
            gallery, "images", FieldType.MEDIA, is_unique=True,
            config={"maxFiles": 2, "maxSizeMB": 1},
        )
        return gallery, field

    def test_urls_are_sorted(self, gallery):
        _, field = gallery
        normalized = validate_media(field, {"urls": ["/uploads/b.png", "/uploads/a.png"]})
        assert normalized == {"urls": ["/uploads/a.png", "/uploads/b.png"]}

    def test_files_pass_through(self, gallery):
        _, field = gallery
        files = [{"mime": "image/png", "size": 10}]
        assert validate_media(field, {"urls": ["/uploads/a.png"], "files": files})["files"] == files

    @pytest.mark.parametrize("value, message", [
        ({"urls": ["/uploads/a.png", "/uploads/b.png", "/uploads/c.png"]}, "images exceeds maxFiles=2"),
        ({"urls": ["https://cdn.example.com/a.png"]}, "images invalid file url: https://cdn.example.com/a.png"),
        ({"urls": ["/uploads/a.gif"], "files": [{"mime": "image/gif"}]}, "images mime not allowed: image/gif"),
        ({"urls": ["/uploads/a.png"], "files": [{"mime": "image/png", "size": 2 * 1024 * 1024}]},
         "images file too large (> 1 MB)"),
    ])
    def test_rejections(self, gallery, value, message):
        _, field = gallery
        with pytest.raises(EntryValidationError) as exc:
            validate_media(field, value)
        assert exc.value.rule == "media"
        assert str(exc.value) == message

    def test_min_files(self, db, make_type, make_field):
        album = make_type("album")
        field = make_field(album, "cover", FieldType.MEDIA, config={"minFiles": 1, "maxFiles": 3})
        with pytest.raises(EntryValidationError) as exc:
            validate_media(field, {"urls": []})
        assert str(exc.value) == "cover requires at least 1 file(s)"

    def test_unique_by_content(self, db, gallery, make_entry):
        gallery_type, _ = gallery
        make_entry(gallery_type, {"images": {"urls": ["/uploads/b.png", "/uploads/a.png"]}})

        with pytest.raises(EntryValidationError) as exc:
            enforce_on_payload(db, gallery_type.id, None, _values(images={"urls": ["/uploads/a.png", "/uploads/b.png"]}))
        assert _rule(exc) == ("images", "unique")
