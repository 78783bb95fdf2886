"""Value types shared across the mailbox engine."""
