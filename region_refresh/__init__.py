"""Region Refresh: server-side region selection and the client region monitor."""
