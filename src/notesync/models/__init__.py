"""Domain and database models for the notesync core."""
