import unittest

from content_backfill.db import ContentRecord, InMemoryDocumentStore
from content_backfill.errors import SlugConflictError
from content_backfill.slugs import (
    FALLBACK_SLUG,
    SLUG_PATTERN,
    assign_unique_slug,
    resolve_unique_slug,
    slug_from_title,
)


class SlugFromTitleTests(unittest.TestCase):
    def test_punctuation_and_trailing_space(self):
        self.assertEqual(slug_from_title("Hello, World!! "), "hello-world")

    def test_collapses_whitespace_and_hyphens(self):
        self.assertEqual(slug_from_title("  a   b -- c\t\nd  "), "a-b-c-d")
        self.assertEqual(slug_from_title("--Leading and trailing--"), "leading-and-trailing")

    def test_strips_underscores_and_non_ascii(self):
        self.assertEqual(slug_from_title("snake_case Café"), "snakecase-caf")

    def test_fallback_for_empty_or_missing(self):
        for title in ("", "   ", "!!!", "---", None, 42, ["Title"]):
            with self.subTest(title=title):
                self.assertEqual(slug_from_title(title), FALLBACK_SLUG)

    def test_output_is_always_valid(self):
        titles = [
            "My First Post",
            "C++ vs. Rust: 2024 edition",
            "  Mixed   CASE and  spaces ",
            "emoji 🚀 launch",
            "a-b--c---d",
        ]
        for title in titles:
            with self.subTest(title=title):
                self.assertRegex(slug_from_title(title), SLUG_PATTERN)


class ResolveUniqueSlugTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryDocumentStore()

    def test_free_candidate_is_accepted(self):
        self.assertEqual(resolve_unique_slug(self.store, "hello-world"), "hello-world")

    def test_suffixes_increment_until_free(self):
        self.store.add_content(ContentRecord(id="a", slug="hello-world"))
        self.assertEqual(resolve_unique_slug(self.store, "hello-world"), "hello-world-1")

        self.store.add_content(ContentRecord(id="b", slug="hello-world-1"))
        self.assertEqual(resolve_unique_slug(self.store, "hello-world"), "hello-world-2")

    def test_own_record_is_not_a_conflict(self):
        self.store.add_content(ContentRecord(id="a", slug="hello-world"))
        self.assertEqual(
            resolve_unique_slug(self.store, "hello-world", exclude_id="a"),
            "hello-world",
        )


class AssignUniqueSlugTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryDocumentStore()

    def test_writes_resolved_slug(self):
        self.store.add_content(ContentRecord(id="a", slug="hello-world"))
        self.store.add_content(ContentRecord(id="b", title="Hello, World!! "))

        slug = assign_unique_slug(self.store, self.store.get_content("b"))

        self.assertEqual(slug, "hello-world-1")
        self.assertEqual(self.store.get_content("b").slug, "hello-world-1")

    def test_empty_title_uses_fallback(self):
        self.store.add_content(ContentRecord(id="a", slug="post"))
        self.store.add_content(ContentRecord(id="b", title=""))
        self.store.add_content(ContentRecord(id="c"))

        self.assertEqual(assign_unique_slug(self.store, self.store.get_content("b")), "post-1")
        self.assertEqual(assign_unique_slug(self.store, self.store.get_content("c")), "post-2")

    def test_already_slugged_record_is_untouched(self):
        self.store.add_content(ContentRecord(id="a", title="Other", slug="keep-me"))

        self.assertIsNone(assign_unique_slug(self.store, self.store.get_content("a")))
        self.assertEqual(self.store.writes, 0)
        self.assertEqual(self.store.get_content("a").slug, "keep-me")

    def test_dry_run_does_not_write(self):
        self.store.add_content(ContentRecord(id="a", title="Draft"))

        self.assertEqual(
            assign_unique_slug(self.store, self.store.get_content("a"), dry_run=True),
            "draft",
        )
        self.assertIsNone(self.store.get_content("a").slug)
        self.assertEqual(self.store.writes, 0)

    def test_concurrent_claim_moves_to_next_suffix(self):
        store = RacingStore(racer_id="intruder", racer_slug="hello-world")
        store.add_content(ContentRecord(id="b", title="Hello World"))
        store.add_content(ContentRecord(id="intruder", title="Hello World"))

        slug = assign_unique_slug(store, store.get_content("b"))

        self.assertEqual(slug, "hello-world-1")
        self.assertEqual(store.get_content("intruder").slug, "hello-world")
        self.assertNotEqual(store.get_content("b").slug, store.get_content("intruder").slug)

    def test_record_slugged_by_another_writer_is_skipped(self):
        store = RacingStore(racer_id="b", racer_slug="set-elsewhere")
        store.add_content(ContentRecord(id="b", title="Hello World"))

        self.assertIsNone(assign_unique_slug(store, store.get_content("b")))
        self.assertEqual(store.get_content("b").slug, "set-elsewhere")

    def test_gives_up_after_repeated_conflicts(self):
        store = AlwaysLosingStore()
        store.add_content(ContentRecord(id="b", title="Busy"))

        with self.assertRaises(SlugConflictError) as ctx:
            assign_unique_slug(store, store.get_content("b"), max_conflict_retries=3)
        self.assertEqual(ctx.exception.attempts, 3)
        self.assertIsNone(store.get_content("b").slug)


class RacingStore(InMemoryDocumentStore):
    """Lets another writer set a slug between the lookup and the first write."""

    def __init__(self, *, racer_id, racer_slug):
        super().__init__()
        self.racer_id = racer_id
        self.racer_slug = racer_slug
        self.raced = False

    def set_content_field_if_unset(self, content_id, field_name, value):
        if not self.raced:
            self.raced = True
            self.content[self.racer_id].slug = self.racer_slug
        return super().set_content_field_if_unset(content_id, field_name, value)


class AlwaysLosingStore(InMemoryDocumentStore):
    """Every candidate slug is taken by someone else before the write lands."""

    def __init__(self):
        super().__init__()
        self.counter = 0

    def set_content_field_if_unset(self, content_id, field_name, value):
        self.counter += 1
        self.add_content(ContentRecord(id=f"other-{self.counter}", slug=value))
        return super().set_content_field_if_unset(content_id, field_name, value)


if __name__ == "__main__":
    unittest.main()
