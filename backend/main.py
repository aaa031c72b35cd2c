"""
Referral Payout Engine — FastAPI application.

Thin HTTP surface over the engine. Every graph endpoint takes the member
snapshot in the request body, so the service holds no graph state.

  POST /api/downline        root's downline (BFS order) + direct/indirect summary
  POST /api/steps           join-order step assignment, step groups, actual counts
  POST /api/referral-tree   nested referral tree with member count and depth
  GET  /api/tier            club tier for a subscription amount
  GET  /api/tiers           all club tiers
  POST /api/payout          ideal payout (3^s members per step)
  POST /api/payout/actual   payout from actual per-step counts
  POST /api/report          batch payout run → .xlsx report
  GET  /api/download/{filename}
                            serve a generated .xlsx report

Error handling:
  - InvalidInputError, TreeDepthExceededError → 400
  - Missing report file → 404
  - Per-member failures during a report → listed in the Exceptions tab
"""

import os
import logging

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse

import config
from models.schemas import (
    ActualPayoutRequest, ClubTier, DownlineRequest, DownlineResponse, DownlineSummary,
    PayoutRequest, PayoutResult, ReferralTreeRequest, ReferralTreeResponse,
    ReportRequest, ReportResponse, StepsRequest, StepsResponse,
)
from services.batch_report import run_batch_report
from services.cache import ResultCache
from services.club_tier import get_club_tiers, resolve_tier
from services.downline import compute_downline_levels, sort_by_join_order
from services.errors import InvalidInputError, TreeDepthExceededError
from services.excel_export import generate_report
from services.member_source import HttpMemberSource, SnapshotMemberSource
from services.payout import calculate_payout, calculate_payout_with_actual_counts
from services.referral_tree import (
    build_referral_tree, build_step_groups, count_tree_members,
    summarize_downline, tree_depth,
)
from services.steps import actual_counts_for_payout, assign_steps

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Referral Payout Engine",
    description="Downline, step and payout calculations for chit-fund referral networks",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Ensure output directory exists at startup
os.makedirs(config.OUTPUT_DIR, exist_ok=True)


def _bad_request(e: Exception) -> HTTPException:
    return HTTPException(
        status_code=400,
        detail={"status": "error", "message": str(e)},
    )


# ===========================================================================
# Graph endpoints
# ===========================================================================

@app.post("/api/downline", response_model=DownlineResponse)
async def get_downline(request: DownlineRequest):
    """Root's downline in BFS-discovery order. Unknown roots give an empty list."""
    source = SnapshotMemberSource(request.members)
    levels = compute_downline_levels(request.root_id, source.list_children)
    downline = [entry for level in levels for entry in level]

    logger.info(
        f"Downline for {request.root_id}: {len(downline)} members "
        f"across {len(levels)} levels ({source.query_count} queries)"
    )

    return DownlineResponse(
        root_id=request.root_id,
        downline=downline,
        summary=summarize_downline(levels),
    )


@app.post("/api/steps", response_model=StepsResponse)
async def get_steps(request: StepsRequest):
    """Join-order step assignment for a root's downline."""
    source = SnapshotMemberSource(request.members)
    levels = compute_downline_levels(request.root_id, source.list_children)
    downline = [entry for level in levels for entry in level]

    assignments = assign_steps(sort_by_join_order(downline))

    return StepsResponse(
        root_id=request.root_id,
        assignments=assignments,
        steps=build_step_groups(assignments),
        actual_counts=actual_counts_for_payout(assignments),
    )


@app.post("/api/referral-tree", response_model=ReferralTreeResponse)
async def get_referral_tree(request: ReferralTreeRequest):
    """
    Nested referral tree below a root, each member under its referrer.

    max_depth limits how many levels are expanded; a tree deeper than
    config.MAX_TREE_DEPTH is rejected with 400.
    """
    source = SnapshotMemberSource(request.members)

    try:
        tree = build_referral_tree(request.root_id, source.list_children, request.max_depth)
        total = count_tree_members(tree)
        depth = tree_depth(tree)
    except (InvalidInputError, TreeDepthExceededError) as e:
        raise _bad_request(e)

    direct = len(tree.children)
    logger.info(f"Referral tree for {request.root_id}: {total} members, depth {depth}")

    return ReferralTreeResponse(
        root_id=request.root_id,
        tree=tree,
        total_members=total,
        depth=depth,
        summary=DownlineSummary(
            total_members=total,
            direct_members=direct,
            indirect_members=total - direct,
        ),
    )


# ===========================================================================
# Tier + payout endpoints
# ===========================================================================

@app.get("/api/tier", response_model=ClubTier)
async def get_tier(amount: float):
    return resolve_tier(amount)


@app.get("/api/tiers", response_model=list[ClubTier])
async def list_tiers():
    return get_club_tiers()


@app.post("/api/payout", response_model=PayoutResult)
async def compute_payout(request: PayoutRequest):
    try:
        return calculate_payout(request.base_rate, request.max_steps)
    except InvalidInputError as e:
        raise _bad_request(e)


@app.post("/api/payout/actual", response_model=PayoutResult)
async def compute_payout_from_actual_counts(request: ActualPayoutRequest):
    try:
        return calculate_payout_with_actual_counts(request.base_rate, request.actual_counts)
    except InvalidInputError as e:
        raise _bad_request(e)


# ===========================================================================
# POST /api/report — batch payout run + Excel report
# ===========================================================================

@app.post("/api/report", response_model=ReportResponse)
def create_report(request: ReportRequest):
    """
    Compute payouts for every requested member and write the .xlsx report.

    Uses the snapshot in the request when given, otherwise the configured
    member API. One cache is shared by the whole run and dropped afterwards.
    """
    logger.info(f"=" * 60)
    logger.info(f"PAYOUT REPORT: {request.report_label} ({len(request.user_ids)} members)")
    logger.info(f"=" * 60)

    cache = ResultCache()

    if request.members is not None:
        source = SnapshotMemberSource(request.members, request.subscription_amounts)
        rows, failures = run_batch_report(request.user_ids, source, cache=cache)
    else:
        with HttpMemberSource() as source:
            rows, failures = run_batch_report(request.user_ids, source, cache=cache)

    filepath = generate_report(rows, failures, request.report_label)
    filename = os.path.basename(filepath)

    summary = {
        "total_members": len(rows),
        "total_payout": sum(r.payout.total_payout for r in rows),
        "total_downline": sum(r.downline_count for r in rows),
        "total_exceptions": len(failures),
    }

    logger.info(f"Report complete: {summary}")

    return ReportResponse(status="success", filename=filename, summary=summary)


# ===========================================================================
# GET /api/download/{filename} — Serve generated .xlsx files
# ===========================================================================

@app.get("/api/download/{filename}")
async def download_report(filename: str):
    """Download a generated .xlsx report; 404 if it doesn't exist."""
    file_path = os.path.join(config.OUTPUT_DIR, os.path.basename(filename))

    if os.path.basename(filename) != filename or not os.path.exists(file_path):
        raise HTTPException(
            status_code=404,
            detail={
                "status": "error",
                "message": f"Report not found: {filename}",
            },
        )

    return FileResponse(
        file_path,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
        },
    )


# ===========================================================================
# Main entry point
# ===========================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
