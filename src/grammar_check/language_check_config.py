"""Configuration tables for the LanguageTool-backed engine.

Defines the LanguageTool rules to disable, the words the spelling paths
should never flag, and how LanguageTool issue types map onto the issue
categories used throughout the checker.
"""

from src.models import IssueCategory

# Rules that are noisy for free-form prose typed into an editor
DEFAULT_DISABLED_RULES = {
    "WHITESPACE_RULE",
    "CONSECUTIVE_SPACES",
    "SENTENCE_WHITESPACE",
    "UPPERCASE_SENTENCE_START",
    "COMMA_PARENTHESIS_WHITESPACE",
    "EN_UNPAIRED_BRACKETS",
    "DASH_RULE",
    "PHRASE_REPETITION",
}

# Spelling rules are left to the dedicated spelling engine
SPELLING_RULE_PREFIXES = ("MORFOLOGIK_RULE", "HUNSPELL_RULE")

# Words never reported as misspellings (case-sensitive)
DEFAULT_IGNORED_WORDS = {
    # --- Product / platform names ---
    "LanguageTool", "GitHub", "JavaScript", "TypeScript", "WebAssembly", "YouTube",
    # --- Common acronyms ---
    "API", "APIs", "CPU", "GPU", "HTML", "CSS", "JSON", "PDF", "URL", "URLs", "UI", "UX",
    # --- Editor vocabulary ---
    "autosave", "autocorrect", "markdown", "Markdown", "todo", "TODO",
    # --- Tech vocabulary the dictionary lacks ---
    "async", "backend", "frontend", "username", "usernames", "login", "signup",
}

# LanguageTool ``ruleIssueType`` values → issue categories
ISSUE_TYPE_CATEGORIES = {
    "grammar": IssueCategory.GRAMMAR,
    "misspelling": IssueCategory.SPELLING,
    "typographical": IssueCategory.PUNCTUATION,
    "whitespace": IssueCategory.PUNCTUATION,
    "duplication": IssueCategory.GRAMMAR,
    "inconsistency": IssueCategory.GRAMMAR,
    "style": IssueCategory.STYLE,
    "register": IssueCategory.STYLE,
    "locale-violation": IssueCategory.STYLE,
    "uncategorized": IssueCategory.GRAMMAR,
    "non-conformance": IssueCategory.CLARITY,
    "omission": IssueCategory.GRAMMAR,
    "addition": IssueCategory.GRAMMAR,
}

# LanguageTool ``category`` ids, used when the issue type is missing
RULE_CATEGORY_CATEGORIES = {
    "GRAMMAR": IssueCategory.GRAMMAR,
    "TYPOS": IssueCategory.SPELLING,
    "PUNCTUATION": IssueCategory.PUNCTUATION,
    "TYPOGRAPHY": IssueCategory.PUNCTUATION,
    "STYLE": IssueCategory.STYLE,
    "REDUNDANCY": IssueCategory.STYLE,
    "PLAIN_ENGLISH": IssueCategory.CLARITY,
    "CONFUSED_WORDS": IssueCategory.GRAMMAR,
    "COLLOCATIONS": IssueCategory.GRAMMAR,
}

# Sentence fed to a freshly loaded module; it must produce at least one match
SELF_TEST_SENTENCE = "The cats is hungry."
