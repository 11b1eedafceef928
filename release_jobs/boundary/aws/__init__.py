"""AWS boundary: external orchestration clients and the capability probe."""
