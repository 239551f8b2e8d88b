"""ER diagram toolkit: schema editing, diagrams and SQLAlchemy round trips."""
