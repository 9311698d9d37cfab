"""
Purpose classification.

Free-text purposes are tagged once, when a record is saved, and vendor gating
reads the tag. Matching is a case-insensitive substring test, so a purpose
such as "non-project" is still tagged as project.
"""
PURPOSE_GENERAL = 'general'
PURPOSE_PROJECT = 'project'
PURPOSE_MARKETING = 'marketing'
PURPOSE_OTHER = 'other'

PURPOSE_TAG_CHOICES = [
    (PURPOSE_GENERAL, 'General'),
    (PURPOSE_PROJECT, 'Project'),
    (PURPOSE_MARKETING, 'Marketing'),
    (PURPOSE_OTHER, 'Other'),
]

VENDOR_PURPOSE_TAGS = (PURPOSE_PROJECT, PURPOSE_MARKETING)


def classify_purpose(purpose):
    text = (purpose or '').strip().lower()
    if not text:
        return PURPOSE_GENERAL
    if 'project' in text:
        return PURPOSE_PROJECT
    if 'marketing' in text:
        return PURPOSE_MARKETING
    return PURPOSE_OTHER


def is_vendor_purpose(tag):
    return tag in VENDOR_PURPOSE_TAGS
