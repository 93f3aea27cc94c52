from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request

from errors import NotAuthenticated


def current_owner_id():
    verify_jwt_in_request(optional=True)
    owner_id = get_jwt_identity()
    if not owner_id:
        raise NotAuthenticated()
    return owner_id
