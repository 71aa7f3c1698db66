import inspect
import asyncio
import logging

from rfp_utils.core.log import setup_logging, pid_tool_logger, set_logger

# tools main functions
from rfp_tools.auto_score.auto_score import main as auto_score_main

# List of main functions

main_functions = [
    # Tools
    ("auto_score_main", auto_score_main),
]


def _prepare_check_logging(user_id: str | None = None) -> logging.LoggerAdapter:
    setup_logging()

    base = pid_tool_logger(rfp_id="SYSTEM_CHECK", tool_name="check")
    base.propagate = True

    ctx = {
        "tool_name": "CHECK",
        "rfp_id": "system_check",
        "user_id": user_id or "system",
        "request_type": "CHECK",
    }
    set_logger(base, **ctx)
    return logging.LoggerAdapter(base, ctx)


def check_main(user_id: str | None = None) -> dict:
    """Run every registered self-test and log a summary. Returns the tallies."""
    log_adapter = _prepare_check_logging(user_id)

    passed = 0
    failed_items = []

    for name, fn in main_functions:
        try:
            result = fn()
            if inspect.isawaitable(result):
                result = asyncio.run(result)

            if result is None:
                reason = "returned None - unable to verify success"
                log_adapter.error(f"{name} {reason}.")
                failed_items.append((name, reason))
            elif isinstance(result, bool) and not result:
                reason = "returned False - indicates failure"
                log_adapter.error(f"{name} {reason}.")
                failed_items.append((name, reason))
            else:
                log_adapter.info(f"{name} succeeded with result: {result}")
                passed += 1

        except Exception as exc:
            reason = f"exception: {exc.__class__.__name__}: {exc}"
            log_adapter.exception(f"{name} FAILED with {reason}")
            failed_items.append((name, reason))

    log_adapter.info("================= CHECK SUMMARY =================")
    log_adapter.info(f"Passed:   {passed}")
    log_adapter.info(f"Failed:   {len(failed_items)}")
    log_adapter.info(f"Total:    {len(main_functions)}")
    if failed_items:
        log_adapter.info("----------- Failed items -----------")
        for i, (n, why) in enumerate(failed_items, 1):
            log_adapter.info(f"{i}. {n} - {why}")
    log_adapter.info("=================================================")

    return {
        "passed": passed,
        "failed": len(failed_items),
        "total": len(main_functions),
        "failedItems": failed_items,
    }


if __name__ == "__main__":
    check_main()
