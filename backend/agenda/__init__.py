"""Agenda: scheduling and client management backend."""
