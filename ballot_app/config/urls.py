from django.contrib import admin
from django.urls import include, path

from voting.views_health import healthz, readyz

urlpatterns = [
    path('healthz', healthz, name='healthz-noslash'),
    path('healthz/', healthz, name='healthz'),
    path('readyz', readyz, name='readyz-noslash'),
    path('readyz/', readyz, name='readyz'),
    path('admin/', admin.site.urls),
    path('api/', include('voting.urls')),
]
