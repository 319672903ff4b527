"""Domain logic: range handling, availability, snapshot diffing and ingestion."""
