"""Ticket lifecycle workflow."""
