"""
Erreurs métier du costing / réconciliation stock.

Taxonomie :
- StoreError             : appel store en échec (réseau, I/O, SQL)
- SheetPersistenceError  : upsert/delete de la feuille en échec, opération avortée
- CostSheetValidationError : feuille candidate invalide, rien n'est écrit

L'application partielle (certaines écritures stock KO) n'est PAS une exception :
elle est rapportée dans ReconciliationResult.failed.
"""


class CostingError(Exception):
    pass


class StoreError(CostingError):
    pass


class SheetPersistenceError(CostingError):
    def __init__(self, job_id: str, action: str, cause: Exception | None = None):
        self.job_id = job_id
        self.action = action
        self.cause = cause
        message = f"Failed to {action} cost sheet for job {job_id}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class CostSheetValidationError(CostingError):
    pass

