"""Guest session and account linking reconciler.

Keeps guest-created profile data attached to the account a visitor signs up
or signs in with, exactly once per guest session and user.
"""

__version__ = "0.1.0"
