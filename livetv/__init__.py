"""LiveTV catalog: playlist and XMLTV ingestion, merge and caching."""
