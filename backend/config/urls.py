from django.urls import include, path

urlpatterns = [
    path('api/', include('medication.urls')),
]
