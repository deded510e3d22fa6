"""
Backfill engine for the blog content store.

This package holds the one-shot migrations that move the content collection
from the legacy denormalized schema (embedded ``likedBy`` arrays, posts
without slugs) to the normalized one, plus the store abstraction they run
against.
"""
