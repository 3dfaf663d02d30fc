from . import account, admin, public
