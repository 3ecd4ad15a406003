"""Types and threshold logic shared by the live collector and the results analyzer."""
