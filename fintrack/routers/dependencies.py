from fastapi import Header


# Identity is established by the upstream auth layer, which forwards the
# authenticated user's id in this header.
def get_current_user_id(x_user_id: int = Header(..., alias="X-User-Id")) -> int:
    return x_user_id
