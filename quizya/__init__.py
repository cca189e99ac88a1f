"""Quizya core: session timing, score aggregation, guest identity, handlers."""
