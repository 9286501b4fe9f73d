"""Turn assembly: token accounting, prompt components and the turn state machine."""
