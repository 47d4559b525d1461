import pytest

from contentgraph.core.exceptions import ConfigurationError, EntryValidationError, NotFoundError
from contentgraph.models.content_relation import ContentRelation, ContentRelationM2M
from contentgraph.schemas.cms import FieldType, RelationKind
from contentgraph.services.cms import relation_m2m_service, relation_service


@pytest.fixture
def people(blog, make_entry):
    return [make_entry(blog.author, seo_title=name) for name in ("Ann", "Bob", "Cid")]


def _targets(rows):
    return [row.to_entry_id for row in rows]


class TestOrderedEdges:

    def test_append_keeps_insertion_order(self, db, workspace, blog, make_entry, people):
        article = make_entry(blog.article, {"title": "Hello"})
        for person in people:
            relation_service.append(db, workspace.id, blog.article_authors.id, article.id, person.id)

        rows, total = relation_service.list_related(db, workspace.id, blog.article_authors.id, article.id)
        assert total == 3
        assert _targets(rows) == [p.id for p in people]
        assert [row.position for row in rows] == [0, 1, 2]

    def test_append_existing_edge_is_noop(self, db, workspace, blog, make_entry, people):
        article = make_entry(blog.article, {"title": "Hello"})
        first = relation_service.append(db, workspace.id, blog.article_authors.id, article.id, people[0].id)
        again = relation_service.append(db, workspace.id, blog.article_authors.id, article.id, people[0].id)

        assert again.id == first.id
        assert db.query(ContentRelation).filter(ContentRelation.from_entry_id == article.id).count() == 1

    def test_many_to_one_replaces_target(self, db, workspace, blog, make_entry, people):
        article = make_entry(blog.article, {"title": "Hello"})
        relation_service.append(db, workspace.id, blog.article_author.id, article.id, people[0].id)
        relation_service.append(db, workspace.id, blog.article_author.id, article.id, people[1].id)

        rows, total = relation_service.list_related(db, workspace.id, blog.article_author.id, article.id)
        assert total == 1
        assert _targets(rows) == [people[1].id]

    def test_one_to_many_moves_target_to_new_source(self, db, workspace, blog, make_entry, people):
        first = make_entry(blog.article, {"title": "First"})
        second = make_entry(blog.article, {"title": "Second"})
        relation_service.append(db, workspace.id, blog.article_authors.id, first.id, people[0].id)
        relation_service.append(db, workspace.id, blog.article_authors.id, second.id, people[0].id)

        rows, _ = relation_service.find_from_by_related(db, workspace.id, blog.article_authors.id, people[0].id)
        assert [row.from_entry_id for row in rows] == [second.id]

    def test_one_to_one_moves_pairing(self, db, workspace, blog, make_field, make_entry, people):
        editor = make_field(
            blog.article, "editor", FieldType.RELATION,
            relation={"kind": RelationKind.ONE_TO_ONE, "target_content_type_id": blog.author.id},
        )
        first = make_entry(blog.article, {"title": "First"})
        second = make_entry(blog.article, {"title": "Second"})

        relation_service.append(db, workspace.id, editor.id, first.id, people[0].id)
        relation_service.append(db, workspace.id, editor.id, second.id, people[0].id)
        relation_service.append(db, workspace.id, editor.id, second.id, people[1].id)

        edges = db.query(ContentRelation).filter(ContentRelation.field_id == editor.id).all()
        assert [(e.from_entry_id, e.to_entry_id) for e in edges] == [(second.id, people[1].id)]

    def test_detach_and_clear(self, db, workspace, blog, make_entry, people):
        article = make_entry(blog.article, {"title": "Hello"})
        for person in people:
            relation_service.append(db, workspace.id, blog.article_authors.id, article.id, person.id)

        assert relation_service.detach_many(
            db, workspace.id, blog.article_authors.id, article.id, [people[1].id, "missing"]
        ) == 1
        assert relation_service.detach_many(db, workspace.id, blog.article_authors.id, article.id, []) == 0
        assert relation_service.clear(db, workspace.id, blog.article_authors.id, article.id) == 2
        assert relation_service.clear(db, workspace.id, blog.article_authors.id, article.id) == 0

    def test_reorder(self, db, workspace, blog, make_entry, people):
        article = make_entry(blog.article, {"title": "Hello"})
        for person in people:
            relation_service.append(db, workspace.id, blog.article_authors.id, article.id, person.id)

        rows = relation_service.reorder(
            db, workspace.id, blog.article_authors.id, article.id, [people[2].id, people[0].id, people[1].id]
        )
        assert _targets(rows) == [people[2].id, people[0].id, people[1].id]

    def test_list_related_paginates(self, db, workspace, blog, make_entry, people):
        article = make_entry(blog.article, {"title": "Hello"})
        for person in people:
            relation_service.append(db, workspace.id, blog.article_authors.id, article.id, person.id)

        rows, total = relation_service.list_related(
            db, workspace.id, blog.article_authors.id, article.id, skip=1, limit=1
        )
        assert total == 3
        assert _targets(rows) == [people[1].id]

    def test_rejects_wrong_target_type(self, db, workspace, blog, make_entry):
        article = make_entry(blog.article, {"title": "Hello"})
        company = make_entry(blog.company, seo_title="Initech")

        with pytest.raises(EntryValidationError) as exc:
            relation_service.append(db, workspace.id, blog.article_author.id, article.id, company.id)
        assert exc.value.rule == "relation_target"

    def test_rejects_m2m_field(self, db, workspace, blog, make_entry, people):
        article = make_entry(blog.article, {"title": "Hello"})
        with pytest.raises(ConfigurationError):
            relation_service.append(db, workspace.id, blog.article_reviewers.id, article.id, people[0].id)

    def test_rejects_non_relation_field(self, db, workspace, blog, make_entry, people):
        article = make_entry(blog.article, {"title": "Hello"})
        with pytest.raises(ConfigurationError):
            relation_service.append(db, workspace.id, blog.title.id, article.id, people[0].id)

    def test_field_of_other_workspace_is_not_found(self, db, other_workspace, blog, make_entry, people):
        article = make_entry(blog.article, {"title": "Hello"})
        with pytest.raises(NotFoundError) as exc:
            relation_service.append(db, other_workspace.id, blog.article_authors.id, article.id, people[0].id)
        assert exc.value.code == "RELATION_FIELD_NOT_FOUND"

    def test_unknown_source_entry(self, db, workspace, blog, people):
        with pytest.raises(NotFoundError) as exc:
            relation_service.append(db, workspace.id, blog.article_authors.id, "missing", people[0].id)
        assert exc.value.code == "ENTRY_NOT_FOUND"


class TestManyToManyEdges:

    def test_attach_is_idempotent_upsert(self, db, workspace, blog, make_entry, people):
        article = make_entry(blog.article, {"title": "Hello"})
        ann, bob, cid = people

        relation_m2m_service.attach_many(db, workspace.id, blog.article_reviewers.id, article.id, [ann.id, bob.id])
        rows = relation_m2m_service.attach_many(
            db, workspace.id, blog.article_reviewers.id, article.id, [bob.id, cid.id, cid.id]
        )

        assert [(r.to_entry_id, r.position) for r in rows] == [(bob.id, 1), (cid.id, 2)]
        assert db.query(ContentRelationM2M).filter(ContentRelationM2M.from_entry_id == article.id).count() == 3

        rows, total = relation_m2m_service.list_related(db, workspace.id, blog.article_reviewers.id, article.id)
        assert total == 3
        assert _targets(rows) == [ann.id, bob.id, cid.id]

    def test_attach_nothing(self, db, workspace, blog, make_entry):
        article = make_entry(blog.article, {"title": "Hello"})
        assert relation_m2m_service.attach_many(db, workspace.id, blog.article_reviewers.id, article.id, []) == []

    def test_attach_checks_targets(self, db, workspace, blog, make_entry):
        article = make_entry(blog.article, {"title": "Hello"})
        with pytest.raises(EntryValidationError) as exc:
            relation_m2m_service.attach_many(db, workspace.id, blog.article_reviewers.id, article.id, ["missing"])
        assert exc.value.details == {"missing": ["missing"]}

    def test_detach_clear_and_reverse_lookup(self, db, workspace, blog, make_entry, people):
        first = make_entry(blog.article, {"title": "First"})
        second = make_entry(blog.article, {"title": "Second"})
        ann, bob, _ = people
        relation_m2m_service.attach_many(db, workspace.id, blog.article_reviewers.id, first.id, [ann.id, bob.id])
        relation_m2m_service.attach_many(db, workspace.id, blog.article_reviewers.id, second.id, [ann.id])

        rows, total = relation_m2m_service.find_from_by_related(db, workspace.id, blog.article_reviewers.id, ann.id)
        assert total == 2
        assert {r.from_entry_id for r in rows} == {first.id, second.id}

        assert relation_m2m_service.detach_many(
            db, workspace.id, blog.article_reviewers.id, first.id, [ann.id, "missing"]
        ) == 1
        assert relation_m2m_service.clear(db, workspace.id, blog.article_reviewers.id, second.id) == 1

        _, total = relation_m2m_service.find_from_by_related(db, workspace.id, blog.article_reviewers.id, ann.id)
        assert total == 0

    def test_reorder(self, db, workspace, blog, make_entry, people):
        article = make_entry(blog.article, {"title": "Hello"})
        ids = [p.id for p in people]
        relation_m2m_service.attach_many(db, workspace.id, blog.article_reviewers.id, article.id, ids)

        rows = relation_m2m_service.reorder(db, workspace.id, blog.article_reviewers.id, article.id, ids[::-1])
        assert _targets(rows) == ids[::-1]

    def test_rejects_ordered_field(self, db, workspace, blog, make_entry, people):
        article = make_entry(blog.article, {"title": "Hello"})
        with pytest.raises(ConfigurationError):
            relation_m2m_service.attach_many(db, workspace.id, blog.article_authors.id, article.id, [people[0].id])
