"""Network clients provided by the telnet agent."""
