"""Seat assignment and camera presence synchronization for live video sessions."""
