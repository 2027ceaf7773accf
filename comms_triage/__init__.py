"""Communication Triage: multi-tenant Gmail and Slack ingestion service."""
