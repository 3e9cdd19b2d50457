"""Click Custom Types for the weights CLI

Domain-specific type validators for Click commands.
Provides early validation at CLI parsing time with clear error messages.
"""

import uuid

import click

from weighting.service import INVALIDATION_REASONS


class PollIdType(click.ParamType):
    """Validates poll IDs: canonical UUID strings

    Valid examples:
    - 3f2b8c1e-6a4d-4e2b-9c1a-0d5e7f8a9b10
    - 3F2B8C1E-6A4D-4E2B-9C1A-0D5E7F8A9B10 (normalised to lowercase)

    Invalid examples:
    - 42 (not a UUID)
    - 3f2b8c1e6a4d4e2b9c1a0d5e7f8a9b10 (missing hyphens)
    """

    name = "poll_id"

    def convert(self, value, param, ctx):
        """Validate poll ID format at CLI parse time

        Returns:
            Lowercase hyphenated UUID string

        Raises:
            click.BadParameter: If the poll ID is not a UUID
        """
        if not value:
            self.fail("poll id cannot be empty", param, ctx)

        try:
            parsed = uuid.UUID(value)
        except ValueError:
            self.fail(f"{value!r} is not a valid poll id (expected a UUID)", param, ctx)

        # uuid.UUID also accepts braces, urn: prefixes and bare hex
        if str(parsed) != value.lower():
            self.fail(
                f"{value!r} is not a valid poll id. "
                f"Format: 8-4-4-4-12 hex digits (e.g., 3f2b8c1e-6a4d-4e2b-9c1a-0d5e7f8a9b10)",
                param,
                ctx,
            )

        return str(parsed)


POLL_ID = PollIdType()

INVALIDATION_REASON = click.Choice(INVALIDATION_REASONS)
