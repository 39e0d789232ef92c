"""Database layer: engine, session, models and enums."""
