from unittest import mock

from django.db import DatabaseError

from gestion_tontine.services import MouvementService


def echouer_a_l_ecriture(numero):
    """Fait échouer la `numero`-ième écriture du grand livre avec une erreur de stockage"""
    enregistrer = MouvementService.enregistrer
    appels = []

    def enregistrer_ou_echouer(*args, **kwargs):
        appels.append(args)
        if len(appels) == numero:
            raise DatabaseError("Écriture impossible")
        return enregistrer(*args, **kwargs)

    return mock.patch.object(MouvementService, 'enregistrer', side_effect=enregistrer_ou_echouer)
