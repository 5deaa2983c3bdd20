"""
Mail subsystem services: each module owns one component and takes the
database session (and any collaborator) as an explicit argument.
"""
