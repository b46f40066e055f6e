"""Business logic for forms, submissions, review, and attachments."""
