"""Game domain services: answer matching, scoring, rooms and sessions.

The pure rules (normalizer, prompts, scoring) import nothing from Flask or
the database. ``rooms`` owns every mutation of room/round/player state and
``sessions`` maps live Socket.IO connections onto players, keeping transport
concerns out of the game mechanics.
"""
