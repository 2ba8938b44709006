"""Core board logic: models, repositories, blob storage and the board service."""
