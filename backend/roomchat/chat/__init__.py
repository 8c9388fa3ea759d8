"""Real-time room chat: sessions, rooms, presence and message routing."""
