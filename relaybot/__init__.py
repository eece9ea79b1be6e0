"""Private-message relay between verified users and a forum admin group."""
