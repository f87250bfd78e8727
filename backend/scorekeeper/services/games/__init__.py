"""Game domain services: stages, rounds, bidding, scoring and sessions.

This package holds the scoring engine shared by the console API and the
visualizer feed. Nothing here touches HTTP or sockets except the transition
scheduler, keeping transport concerns separated from the game rules.
"""
