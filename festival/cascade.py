"""
festival/cascade.py -- Cross-store cascade for deleting a user.

A user's sessions live in the auth store and their rankings in the festival
store, so no single database transaction covers both. Deletion runs as a
saga:

  1. UserStore.delete_sessions_for_user()      -- no new request can act as the user
  2. FestivalStore.delete_rankings_for_user()  -- returns the removed rows
  3. UserStore.delete_user()                   -- user row (and any stray session)
  4. FestivalStore.delete_rankings_for_user()  -- sweep writes already in flight

A ranking write that authenticated before step 1 can still land between
steps 2 and 3; the final sweep removes it once the user row is gone, so no
ranking outlives its owner.

If step 3 raises, step 2 is compensated by re-inserting the removed rankings
and the error propagates. Revoked sessions are not restored; the user logs
in again.

Layer rule: festival/ may import from auth/ (never the reverse).
"""

import logging

from auth.store import UserStore
from core.errors import UserNotFound
from festival.store import FestivalStore

logger = logging.getLogger("rooranking.festival")


def delete_user_cascade(user_store: UserStore, festival: FestivalStore, user_id: int) -> int:
    """Delete a user with all their rankings and sessions.

    Returns the number of rankings removed. Raises UserNotFound if the user
    does not exist (nothing is touched in that case).
    """
    if user_store.get_by_id(user_id) is None:
        raise UserNotFound()

    user_store.delete_sessions_for_user(user_id)
    removed = festival.delete_rankings_for_user(user_id)
    try:
        deleted = user_store.delete_user(user_id)
    except Exception:
        restored = festival.restore_rankings(removed)
        logger.exception("Deleting user %s failed; restored %d of %d rankings", user_id, restored, len(removed))
        raise

    late = festival.delete_rankings_for_user(user_id)
    if late:
        logger.warning("Swept %d rankings written for user %s during deletion", len(late), user_id)
    if not deleted:
        # Deleted concurrently between the check and step 3.
        raise UserNotFound()
    total = len(removed) + len(late)
    logger.info("Deleted user %s with %d rankings", user_id, total)
    return total
