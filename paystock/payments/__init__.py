"""Payment confirmation: verification and the exactly-once coordinator."""
