from decimal import Decimal

from django.contrib.auth.models import User
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from gestion_tontine.models import Credit, Membre, Mouvement, Session
from gestion_tontine.services import CreditService, MouvementService, SessionService


class APITontineTestCase(APITestCase):
    """Tests pour l'API de la tontine"""

    def setUp(self):
        """Configuration initiale pour les tests"""
        self.user = User.objects.create_user(username='tresorier', password='testpass123')
        self.client.force_authenticate(user=self.user)
        self.session, _ = SessionService.creer_session()
        self.alice = Membre.objects.create(nom='Alice', caution=0)

    def test_authentification_requise(self):
        """Test d'accès sans authentification"""
        self.client.force_authenticate(user=None)
        response = self.client.get(reverse('gestion_tontine:fonds-list'))
        self.assertIn(response.status_code, [status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN])

    def test_solde_fonds(self):
        MouvementService.ajouter_mouvement(self.alice.id, 'epargne', 15000)

        response = self.client.get(reverse('gestion_tontine:fonds-list'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['solde'], Decimal('15000'))

    def test_inscrire_membre(self):
        url = reverse('gestion_tontine:membre-list')
        response = self.client.post(url, {'nom': 'Bob', 'caution': '5000'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        membre = Membre.objects.get(pk=response.data['membre_id'])
        self.assertEqual(membre.caution, Decimal('5000'))

    def test_liste_membres(self):
        response = self.client.get(reverse('gestion_tontine:membre-list'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['results'][0]['nom'], 'Alice')

    def test_ajouter_mouvement(self):
        url = reverse('gestion_tontine:mouvement-list')
        response = self.client.post(url, {
            'membre_id': self.alice.id, 'type_mouvement': 'epargne', 'montant': 2500, 'motif': 'Épargne',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['session_id'], self.session.id)

        response = self.client.get(url, {'membre': self.alice.id})
        self.assertEqual(response.data['count'], 1)

    def test_erreurs_mouvement(self):
        """Test de la traduction des erreurs en codes HTTP"""
        url = reverse('gestion_tontine:mouvement-list')

        response = self.client.post(url, {'membre_id': self.alice.id, 'type_mouvement': 'epargne', 'montant': 'abc'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['erreur'], 'InvalidAmount')

        response = self.client.post(url, {'membre_id': 9999, 'type_mouvement': 'epargne', 'montant': 10}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['erreur'], 'UnknownMember')

        response = self.client.post(url, {'type_mouvement': 'epargne'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['erreur'], 'InvalidRequest')

    def test_modifier_et_supprimer_mouvement(self):
        mouvement = MouvementService.ajouter_mouvement(self.alice.id, 'epargne', 2500)
        url = reverse('gestion_tontine:mouvement-detail', args=[mouvement.id])

        response = self.client.patch(url, {'montant': '3000'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        response = self.client.delete(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(Mouvement.objects.exists())

    def test_depenses_communes(self):
        MouvementService.ajouter_mouvement(self.alice.id, 'epargne', 15000)
        url = reverse('gestion_tontine:depensecommune-list')

        response = self.client.post(url, {
            'montant': '5000', 'categorie': 'deuil', 'description': 'Obsèques', 'sur_epargne': False,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        depense_id = response.data['depense_id']

        response = self.client.get(url, {'categorie': 'deuil'})
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['categorie_display'], 'Deuil')

        response = self.client.get(reverse('gestion_tontine:mouvement-list'), {'type_mouvement': 'depense_commune_fonds'})
        self.assertIsNone(response.data['results'][0]['membre_nom'])

        response = self.client.post(url, {'montant': '100', 'categorie': 'vacances'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['erreur'], 'InvalidRequest')

        detail = reverse('gestion_tontine:depensecommune-detail', args=[depense_id])
        response = self.client.patch(detail, {'montant': '6000'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['montant'], Decimal('6000'))

        self.assertEqual(self.client.delete(detail).status_code, status.HTTP_200_OK)
        self.assertEqual(self.client.delete(detail).status_code, status.HTTP_404_NOT_FOUND)

    def test_credit_et_remboursement(self):
        MouvementService.ajouter_mouvement(self.alice.id, 'epargne', 100000)

        response = self.client.post(reverse('gestion_tontine:credit-list'), {
            'membre_id': self.alice.id, 'montant_principal': '10000',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        credit_id = response.data['credit_id']

        url = reverse('gestion_tontine:credit-rembourser', args=[credit_id])
        response = self.client.post(url, {'montant': '20000'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['erreur'], 'ExcessRepayment')

        response = self.client.post(url, {'montant': '12000'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['statut'], Credit.STATUT_REMBOURSE)

    def test_detail_credit(self):
        credit = CreditService.accorder_credit(self.alice.id, 10000)

        response = self.client.get(reverse('gestion_tontine:credit-detail', args=[credit.id]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Decimal(response.data['montant_total_du']), Decimal('12000'))

    def test_sessions(self):
        response = self.client.post(reverse('gestion_tontine:session-list'), {'nom': 'Février'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['numero'], 2)

        response = self.client.delete(reverse('gestion_tontine:session-detail', args=[response.data['session_id']]))
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['erreur'], 'CannotDeleteActiveSession')

        response = self.client.delete(reverse('gestion_tontine:session-detail', args=[self.session.id]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.session.refresh_from_db()
        self.assertEqual(self.session.statut, Session.STATUT_SUPPRIMEE)

    def test_terminer_session(self):
        url = reverse('gestion_tontine:session-terminer', args=[self.session.id])

        self.assertEqual(self.client.post(url).status_code, status.HTTP_200_OK)
        self.assertEqual(self.client.post(url).status_code, status.HTTP_409_CONFLICT)

    def test_cassation(self):
        MouvementService.ajouter_mouvement(self.alice.id, 'epargne', 40000)

        response = self.client.get(reverse('gestion_tontine:cassation-simulation'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_distribue'], Decimal('40000'))

        response = self.client.get(reverse('gestion_tontine:cassation-etat'))
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

        response = self.client.post(reverse('gestion_tontine:cassation-appliquer'))
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        response = self.client.get(reverse('gestion_tontine:cassation-etat'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['membres'][0]['part_recue'], Decimal('40000'))

        response = self.client.post(reverse('gestion_tontine:cassation-nouveau-cycle'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['cycle_pret'])

    def test_reparer_coherence(self):
        response = self.client.post(reverse('gestion_tontine:fonds-reparer-coherence'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['mouvements_rattaches'], 0)
