"""Building blocks for the hourly top-pages job."""
