"""patchright-daemon - a persistent browser session driven by short-lived commands."""
