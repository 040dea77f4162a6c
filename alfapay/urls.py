from django.urls import include, path

urlpatterns = [
    path("api/alfa/", include("alfalah.urls")),
]
