"""
Treatment Log — append-only audit trail of alert lifecycle actions.

Entries are hash-chained per organization and can only be archived
(soft-deleted), never rewritten or removed.
"""
