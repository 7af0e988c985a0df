"""Domain types shared by the ingestion pipeline and the store."""
