"""Document lists for DP (DPC x) and PC (PC x) dossiers."""

from dataclasses import replace

from urbassist.core.types import AuthorizationDocument

DP_DOCUMENTS: list[AuthorizationDocument] = [
    AuthorizationDocument("DPC 1", "Plan de situation", "Localise le terrain dans la commune", "PC 1"),
    AuthorizationDocument("DPC 2", "Plan de masse", "Vue d'ensemble du terrain et des constructions", "PC 2"),
    AuthorizationDocument("DPC 3", "Plan en coupe", "Coupe du terrain et de la construction", "PC 3"),
    AuthorizationDocument("DPC 4", "Plan des façades et des toitures", "Élévations et toitures du projet", "PC 5"),
    AuthorizationDocument("DPC 5", "Représentation de l'aspect extérieur", "Vue en perspective ou 3D du projet", "PC 6"),
    AuthorizationDocument("DPC 6", "Document graphique", "Insertion du projet dans son environnement", "PC 6"),
    AuthorizationDocument("DPC 7", "Photographie de l'environnement proche", "Photos du terrain et des abords immédiats", "PC 7"),
    AuthorizationDocument("DPC 8", "Photographie de l'environnement lointain", "Photos du paysage environnant", "PC 8"),
    AuthorizationDocument("DPC 8.1", "Notice descriptive du projet", "Description détaillée du projet et de son insertion", "PC 4"),
]

# Heritage (ABF) zones only, DP dossiers only
DPC11_DOCUMENT = AuthorizationDocument(
    code="DPC 11",
    label="Notice relative aux modalités d'exécution des travaux",
    description="Requis en zone ABF / Patrimoine, détaille les modalités d'exécution",
    tag="ABF",
)

PC_DOCUMENTS: list[AuthorizationDocument] = [
    AuthorizationDocument("PC 1", "Plan de situation", "Localise le terrain dans la commune", "DPC 1"),
    AuthorizationDocument("PC 2", "Plan de masse", "Vue d'ensemble du terrain et des constructions", "DPC 2"),
    AuthorizationDocument("PC 3", "Plan en coupe", "Coupe du terrain et de la construction", "DPC 3"),
    AuthorizationDocument("PC 4", "Notice descriptive du projet", "Description du terrain, du projet et des matériaux", "DPC 8.1"),
    AuthorizationDocument("PC 5", "Plan des façades et des toitures", "Élévations et toitures du projet", "DPC 4"),
    AuthorizationDocument("PC 6", "Document graphique", "Insertion du projet dans son environnement", "DPC 6"),
    AuthorizationDocument("PC 7", "Photographie de l'environnement proche", "Photos du terrain et des abords immédiats", "DPC 7"),
    AuthorizationDocument("PC 8", "Photographie de l'environnement lointain", "Photos du paysage environnant", "DPC 8"),
]

PC5_EXISTING = AuthorizationDocument(
    code="PC 5a",
    label="Plan des façades et toitures, état existant",
    description="Élévations et toitures de la construction existante avant travaux",
    dual_code="DPC 4a",
    tag="Existant",
)

PC5_PROPOSED = AuthorizationDocument(
    code="PC 5b",
    label="Plan des façades et toitures, état projeté",
    description="Élévations et toitures du projet après travaux",
    dual_code="DPC 4b",
    tag="Projeté",
)

PC_ADDITIONAL_NOTES: list[str] = [
    "Pour les maisons individuelles : attestation thermique RE 2020 pouvant être requise",
    "Pour les maisons individuelles : attestation sismique PCMI 13 pouvant être requise",
]


def _is_pc(kind: str | None) -> bool:
    return (kind or "").upper() in ("PC", "ARCHITECT_REQUIRED")


def documents_for_type(kind: str | None) -> list[AuthorizationDocument]:
    """PC list for PC / ARCHITECT_REQUIRED, DP list for everything else."""
    return list(PC_DOCUMENTS) if _is_pc(kind) else list(DP_DOCUMENTS)


def documents_for_project(
    kind: str | None,
    has_abf: bool = False,
    is_existing_structure: bool = False,
) -> list[AuthorizationDocument]:
    """Full document list for a project.

    PC dossiers split PC 5 into existing/proposed when works touch an existing
    structure, and tag PC 4 for the ABF in heritage zones (no DPC 11 for PC).
    DP dossiers get DPC 11 appended in heritage zones.
    """
    if _is_pc(kind):
        docs: list[AuthorizationDocument] = []
        for doc in PC_DOCUMENTS:
            if doc.code == "PC 5" and is_existing_structure:
                docs.extend([PC5_EXISTING, PC5_PROPOSED])
            elif doc.code == "PC 4" and has_abf:
                docs.append(replace(
                    doc,
                    tag="ABF",
                    description="La notice descriptive sera complétée avec les informations nécessaires pour l'ABF",
                ))
            else:
                docs.append(doc)
        return docs

    docs = list(DP_DOCUMENTS)
    if has_abf:
        docs.append(DPC11_DOCUMENT)
    return docs
