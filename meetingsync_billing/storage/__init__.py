"""Key-value persistence for usage accounts and the ended session archive."""
