"""Background jobs run by the in-process cron service."""
