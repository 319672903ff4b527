"""Feed parsing: tokenizing, date resolution, recurrence expansion and sanitizing."""
