"""
Maintenance jobs for the blogs collection

    python maintenance.py word-counts      # set wordCount where it is missing
    python maintenance.py reconcile-likes  # rebuild blog.likes from wishlists
"""
import argparse
import logging

from blogs import count_words
from config import Settings
from database import BlogStore, oid

logger = logging.getLogger(__name__)


def backfill_word_counts(store) -> int:
    updated = 0
    for blog in store.blogs_missing_word_count():
        if store.set_word_count(oid(blog["id"]), count_words(blog.get("content"))):
            updated += 1
    logger.info("wordCount added to %d blog(s)", updated)
    return updated


def reconcile_likes(store) -> int:
    """Make every blog's likes match the users holding a wishlist entry for it.

    Repairs members missing after a failed toggle, stray members and duplicates.
    """
    expected = store.wishlist_users_by_item()
    changed = 0
    for blog in store.blog_likes():
        want = sorted(expected.get(blog["id"], []))
        have = blog.get("likes") or []
        if sorted(have) != want:
            store.set_likes(oid(blog["id"]), want)
            logger.info("Blog %s likes %d -> %d", blog["id"], len(have), len(want))
            changed += 1
    logger.info("Reconciled likes on %d blog(s)", changed)
    return changed


JOBS = {
    "word-counts": backfill_word_counts,
    "reconcile-likes": reconcile_likes,
}


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Blogify maintenance jobs")
    parser.add_argument("job", choices=sorted(JOBS))
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    store = BlogStore.from_settings(settings).connect()
    try:
        JOBS[args.job](store)
    finally:
        store.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
