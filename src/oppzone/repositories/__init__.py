"""Repository layer: storage protocols and their Postgres implementations."""
