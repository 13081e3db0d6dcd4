"""Remote build execution (RBE) variables.

The reclient toolchain reads its configuration from environment
variables. They are derived from settings here and handed to child
processes through BuildEnvironment instead of being exported by a shell
script.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from aosp_builder.config import Settings

# Tools that run remotely with the configured exec strategy and pool
REMOTE_TOOLS = [
    "ABI_DUMPER",
    "ABI_LINKER",
    "CLANG_TIDY",
    "CXX",
    "CXX_LINKS",
    "D8",
    "JAR",
    "JAVAC",
    "R8",
    "SIGNAPK",
    "TURBINE",
    "ZIP",
]

# Tools enabled without an exec strategy override
POOL_ONLY_TOOLS = ["JAVA"]

# Tools kept local but assigned to the pool
DISABLED_TOOLS = ["METALAVA"]


def rbe_environment(settings: Settings) -> dict[str, str]:
    """Compose the RBE variable set.

    Args:
        settings: Settings with the rbe_* fields.

    Returns:
        Mapping of variable name to value.
    """
    pool = settings.rbe_worker_pool
    strategy = settings.rbe_exec_strategy

    env: dict[str, str] = {
        "USE_RBE": "1",
        "NINJA_REMOTE_NUM_JOBS": str(settings.rbe_remote_jobs),
        "WORKER_POOL": pool,
        "RBE_service": settings.rbe_service,
        "RBE_use_application_default_credentials": "false",
        "RBE_use_rpc_credentials": "false",
    }

    for tool in REMOTE_TOOLS:
        env[f"RBE_{tool}"] = "1"
        env[f"RBE_{tool}_EXEC_STRATEGY"] = strategy
        env[f"RBE_{tool}_POOL"] = pool
    # Link steps read both spellings depending on the platform release
    env["RBE_CXX_LINKS_STRATEGY"] = strategy

    for tool in POOL_ONLY_TOOLS:
        env[f"RBE_{tool}"] = "1"
        env[f"RBE_{tool}_POOL"] = pool

    for tool in DISABLED_TOOLS:
        env[f"RBE_{tool}"] = "0"
        env[f"RBE_{tool}_POOL"] = pool

    env.update(
        {
            "RBE_instance": settings.rbe_instance,
            "RBE_DIR": "prebuilts/remoteexecution-client/live",
            "RBE_server_address": settings.rbe_server_address,
            "RBE_service_no_auth": "true",
            "RBE_enable_deps_cache": "true",
            "RBE_cache_dir": str(settings.rbe_cache_dir),
            "RBE_v": str(settings.rbe_verbosity),
            "RBE_alsologtostderr": "true",
        }
    )
    return env


__all__ = ["DISABLED_TOOLS", "POOL_ONLY_TOOLS", "REMOTE_TOOLS", "rbe_environment"]
