"""Tern: a small dynamic value runtime and evaluator for program trees."""
