"""
Logs in once and saves the session for the authenticated projects
"""

from e2e_runner.registry import e2e_test


@e2e_test('authenticate and save storage')
async def authenticate(ctx):
    await ctx.session_store.produce(
        ctx.context,
        ctx.page,
        ctx.credentials,
        ctx.base_url,
        timeout_ms=ctx.remaining_ms(),
    )
