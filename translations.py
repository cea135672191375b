"""User-facing message strings."""

STRINGS = {
    "stagingArchive": "Preparing EPUB archive",
    "parsingEpub": "Reading EPUB contents",
    "savingNovel": "Saving novel",
    "importNovel": "Importing novel",
    "importStaticFiles": "Importing static files",
    "novelInsertFailed": "Failed to insert novel",
    "chapterInsertFailed": "Failed to insert chapter",
    "stagingFailed": "Failed to prepare the EPUB archive",
    "scratchInUse": "Another import is already using this scratch directory",
    "parseFailed": "Failed to read the EPUB contents",
    "transactionFailed": "Database transaction failed",
}


def get_string(key: str) -> str:
    """Look up a message by key, falling back to the key itself."""
    return STRINGS.get(key, key)
