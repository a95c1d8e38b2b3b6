"""Onboarding wizard persistence -- templates, answers, saved connections and sync runs."""
