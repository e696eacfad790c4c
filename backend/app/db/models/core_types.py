import enum

class SheetStatus(str, enum.Enum):
    issued = "Issued"
    returned = "Returned"
    finalized = "Finalized"

class CostingStage(str, enum.Enum):
    issued = "Issued"
    returned = "Returned"
    final = "Final"


# stage UI -> statut persisté
STAGE_TO_STATUS = {
    CostingStage.issued: SheetStatus.issued,
    CostingStage.returned: SheetStatus.returned,
    CostingStage.final: SheetStatus.finalized,
}

STATUS_TO_STAGE = {status: stage for stage, status in STAGE_TO_STATUS.items()}


def status_for_stage(stage: CostingStage | str | None) -> SheetStatus:
    try:
        return STAGE_TO_STATUS[CostingStage(stage)]
    except ValueError:
        return SheetStatus.issued


def stage_for_status(status: SheetStatus | str | None) -> CostingStage:
    try:
        return STATUS_TO_STAGE[SheetStatus(status)]
    except ValueError:
        return CostingStage.issued
