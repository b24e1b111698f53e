"""Dewana: event invitations and RSVPs."""
