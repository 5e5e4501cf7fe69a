# The engine exposes no HTTP endpoints
urlpatterns = []
