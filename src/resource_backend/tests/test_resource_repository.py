"""
Tests for the resource store and the SQLAlchemy filter compiler.
"""

from datetime import timedelta

import pytest

from resource_backend.interface.filter import FilterSyntaxError, parse_filter
from resource_backend.interface.query import parse_order_by
from resource_backend.model.resource import Resource
from resource_backend.repositories.base import NotFoundError, RepositoryError
from resource_backend.repositories.filter_compiler import ResourceFilterCompiler
from resource_backend.repositories.resource import ResourceRepository
from resource_backend.tests.fixtures import MEMBER_B_ID, NOW, TEST_APP_ID, USER_ID

PROPERTIES = {
    "foo": {"type": "string"},
    "integer": {"type": "integer"},
    "number": {"type": ["number", "null"]},
    "boolean": {"type": "boolean"},
    "object": {"type": "object", "properties": {"nested": {"type": "string"}}},
}


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def repository(seeded_db):
    return ResourceRepository(seeded_db)


@pytest.fixture
def stored(repository):
    """Five instances of testResource, one of them expired, plus one of another type"""

    def _insert(data, author_id=USER_ID, created_at=NOW, expires=None, resource_type="testResource"):
        return repository.insert(Resource(
            app_id=TEST_APP_ID,
            type=resource_type,
            data=data,
            author_id=author_id,
            clonable=False,
            expires=expires,
            created_at=created_at,
            updated_at=created_at,
        ))

    instances = [
        _insert({"foo": "alpha", "integer": 1, "number": 1.5, "boolean": True, "object": {"nested": "x"}}),
        _insert({"foo": "beta", "integer": 5, "number": 2.5, "boolean": False},
                author_id=MEMBER_B_ID, created_at=NOW + timedelta(minutes=1)),
        _insert({"foo": "gamma", "integer": 10, "boolean": True, "untyped": 3},
                created_at=NOW + timedelta(minutes=2)),
        _insert({"foo": "100% sure", "integer": 7},
                author_id=MEMBER_B_ID, created_at=NOW + timedelta(minutes=3), expires=NOW + timedelta(hours=1)),
        _insert({"foo": "expired", "integer": 3}, expires=NOW),
        _insert({"foo": "alpha"}, resource_type="testResourceB"),
    ]
    repository.commit()
    return instances


def _foo_values(repository, text=None, order="foo", author_ids=None, now=NOW, **kwargs):
    compiler = ResourceFilterCompiler(PROPERTIES)
    instances = repository.find_many(
        TEST_APP_ID,
        "testResource",
        now,
        predicate=compiler.compile(parse_filter(text)),
        order_by=compiler.order_by(parse_order_by(order)),
        author_ids=author_ids,
        **kwargs
    )
    return [instance.data["foo"] for instance in instances]


# ============================================================================
# Tests
# ============================================================================

@pytest.mark.integration
class TestVisibility:

    def test_excludes_expired_and_other_types(self, repository, stored):
        assert _foo_values(repository) == ["100% sure", "alpha", "beta", "gamma"]

    def test_expiry_is_relative_to_now(self, repository, stored):
        later = NOW + timedelta(hours=1)
        assert _foo_values(repository, now=later) == ["alpha", "beta", "gamma"]

    def test_author_filter(self, repository, stored):
        assert _foo_values(repository, author_ids={MEMBER_B_ID}) == ["100% sure", "beta"]
        assert _foo_values(repository, author_ids=set()) == []

    def test_find_by_id(self, repository, stored):
        assert repository.find_by_id(TEST_APP_ID, "testResource", stored[0].id, NOW) is stored[0]
        assert repository.find_by_id(TEST_APP_ID, "testResource", stored[4].id, NOW) is None
        assert repository.find_by_id(TEST_APP_ID, "testResourceB", stored[0].id, NOW) is None
        assert repository.find_by_id(TEST_APP_ID, "testResource", stored[0].id, NOW,
                                     author_ids={MEMBER_B_ID}) is None

    def test_count(self, repository, stored):
        compiler = ResourceFilterCompiler(PROPERTIES)
        predicate = compiler.compile(parse_filter("integer gt 1"))

        assert repository.count_where(TEST_APP_ID, "testResource", NOW) == 4
        assert repository.count_where(TEST_APP_ID, "testResource", NOW, predicate=predicate) == 3


@pytest.mark.integration
class TestFilters:

    @pytest.mark.parametrize("text,expected", [
        ("foo eq 'alpha'", ["alpha"]),
        ("foo ne 'alpha'", ["100% sure", "beta", "gamma"]),
        ("integer gt 5", ["100% sure", "gamma"]),
        ("integer ge 5", ["100% sure", "beta", "gamma"]),
        ("integer lt 5", ["alpha"]),
        ("integer le 1", ["alpha"]),
        ("number gt 2", ["beta"]),
        ("boolean eq true", ["alpha", "gamma"]),
        ("boolean eq false", ["beta"]),
        ("number eq null", ["100% sure", "gamma"]),
        ("number ne null", ["alpha", "beta"]),
        ("number gt null", []),
        ("untyped eq 3", ["gamma"]),
        ("object/nested eq 'x'", ["alpha"]),
        ("foo eq 'alpha' or foo eq 'beta'", ["alpha", "beta"]),
        ("integer gt 1 and integer lt 10", ["100% sure", "beta"]),
        ("not (foo eq 'alpha')", ["100% sure", "beta", "gamma"]),
        ("contains(foo, 'et')", ["beta"]),
        ("startswith(foo, 'ga')", ["gamma"]),
        ("endswith(foo, 'ha')", ["alpha"]),
        ("contains(foo, '%')", ["100% sure"]),
        ("contains(foo, null)", []),
    ])
    def test_filter(self, repository, stored, text, expected):
        assert _foo_values(repository, text) == expected

    def test_system_fields(self, repository, stored):
        assert _foo_values(repository, f"$author/id eq {MEMBER_B_ID}") == ["100% sure", "beta"]
        assert _foo_values(repository, "$created gt 2026-01-01T12:01:30.000Z") == ["100% sure", "gamma"]
        assert _foo_values(repository, "$expires ne null") == ["100% sure"]
        assert _foo_values(repository, f"id eq {stored[1].id}") == ["beta"]
        assert _foo_values(repository, "$editor/id eq null") == ["100% sure", "alpha", "beta", "gamma"]

    @pytest.mark.parametrize("text,message", [
        ("id eq abc", "Invalid id 'abc'"),
        ("$created gt yesterday", "Invalid timestamp 'yesterday' for \\$created"),
        ("integer gt 'many'", "Invalid number 'many' for integer"),
        ("boolean eq 'maybe'", "Invalid boolean 'maybe' for boolean"),
    ])
    def test_invalid_values(self, text, message):
        with pytest.raises(FilterSyntaxError, match=message):
            ResourceFilterCompiler(PROPERTIES).compile(parse_filter(text))

    def test_schema_type(self):
        compiler = ResourceFilterCompiler(PROPERTIES)

        assert compiler.schema_type(parse_filter("number eq 1").field) == "number"
        assert compiler.schema_type(parse_filter("object/nested eq 1").field) == "string"
        assert compiler.schema_type(parse_filter("missing eq 1").field) is None


@pytest.mark.integration
class TestOrdering:

    def test_descending(self, repository, stored):
        assert _foo_values(repository, order="integer desc") == ["gamma", "100% sure", "beta", "alpha"]

    def test_system_field(self, repository, stored):
        assert _foo_values(repository, order="$created desc") == ["100% sure", "gamma", "beta", "alpha"]

    def test_ties_are_broken_by_id(self, repository, stored):
        assert _foo_values(repository, order="$author/id") == ["alpha", "gamma", "beta", "100% sure"]

    def test_paging(self, repository, stored):
        assert _foo_values(repository, limit=2) == ["100% sure", "alpha"]
        assert _foo_values(repository, limit=2, offset=2) == ["beta", "gamma"]
        assert _foo_values(repository, offset=3) == ["gamma"]


@pytest.mark.integration
class TestMutations:

    def test_delete_where(self, repository, stored):
        deleted = repository.delete_where(TEST_APP_ID, "testResource", [stored[0].id, 999, stored[4].id], NOW)
        repository.commit()

        assert deleted == [stored[0].id]
        assert repository.find_by_id(TEST_APP_ID, "testResource", stored[0].id, NOW) is None

    def test_delete_respects_author_filter(self, repository, stored):
        deleted = repository.delete_where(TEST_APP_ID, "testResource", [stored[0].id], NOW,
                                          author_ids={MEMBER_B_ID})
        assert deleted == []

    def test_transaction_rolls_back(self, repository, stored):
        with pytest.raises(RuntimeError):
            with repository.transaction():
                repository.update_instance(stored[0], data={"foo": "changed"})
                raise RuntimeError("failed")

        assert repository.find_by_id(TEST_APP_ID, "testResource", stored[0].id, NOW).data["foo"] == "alpha"

    def test_get_by_id(self, repository, stored):
        assert repository.get_by_id(stored[0].id) is stored[0]

        with pytest.raises(NotFoundError, match="Resource 999 does not exist"):
            repository.get_by_id(999)

    def test_failed_write_is_a_repository_error(self, repository, stored):
        with pytest.raises(RepositoryError, match="Could not store Resource"):
            repository.add(Resource(app_id=TEST_APP_ID, type=None, data={}, created_at=NOW, updated_at=NOW))

        repository.db.rollback()
