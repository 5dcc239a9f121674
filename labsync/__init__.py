"""LabSync gamification and scoring engine."""

__version__ = "1.0.0"
