from .waitlist_signup import BlockReason as BlockReason  # noqa: E402
from .waitlist_signup import SignupStatus as SignupStatus  # noqa: E402
from .waitlist_signup import signup_table as signup_table  # noqa: E402
